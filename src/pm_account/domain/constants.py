"""System account ids."""

# Receives the platform share of trading and arbitrage fees.
PLATFORM_USER_ID = "00000000-0000-4000-8000-000000000001"
