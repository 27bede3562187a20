"""Seed prices, volumes and per-symbol parameters for the market simulator."""

# Rough starting prices in USDT for the default whitelist
SEED_PRICES: dict[str, float] = {
    "BTC": 67000.00,
    "ETH": 3200.00,
    "XRP": 0.52,
    "BNB": 580.00,
    "SOL": 150.00,
    "DOGE": 0.12,
    "TRX": 0.13,
    "ADA": 0.45,
    "AVAX": 28.00,
    "XLM": 0.10,
}

# Starting 24h base-currency volumes
SEED_VOLUMES: dict[str, float] = {
    "BTC": 12_000.0,
    "ETH": 150_000.0,
    "XRP": 90_000_000.0,
    "BNB": 180_000.0,
    "SOL": 2_500_000.0,
    "DOGE": 700_000_000.0,
    "TRX": 400_000_000.0,
    "ADA": 120_000_000.0,
    "AVAX": 3_000_000.0,
    "XLM": 60_000_000.0,
}

# Per-symbol GBM parameters
# sigma: annualized volatility (crypto trades 24/7, so these are large)
# mu: annualized drift
SYMBOL_PARAMS: dict[str, dict[str, float]] = {
    "BTC": {"sigma": 0.55, "mu": 0.10},
    "ETH": {"sigma": 0.70, "mu": 0.10},
    "XRP": {"sigma": 0.90, "mu": 0.05},
    "BNB": {"sigma": 0.60, "mu": 0.08},
    "SOL": {"sigma": 1.00, "mu": 0.10},
    "DOGE": {"sigma": 1.20, "mu": 0.00},  # Meme coin, no drift
    "TRX": {"sigma": 0.60, "mu": 0.05},
    "ADA": {"sigma": 0.90, "mu": 0.03},
    "AVAX": {"sigma": 1.00, "mu": 0.05},
    "XLM": {"sigma": 0.85, "mu": 0.03},
}

# Default parameters for symbols not listed above
DEFAULT_PARAMS: dict[str, float] = {"sigma": 0.90, "mu": 0.05}

# Correlation groups for the simulator's Cholesky decomposition
CORRELATION_GROUPS: dict[str, set[str]] = {
    "majors": {"BTC", "ETH"},
    "alts": {"XRP", "BNB", "SOL", "DOGE", "TRX", "ADA", "AVAX", "XLM"},
}

# Correlation coefficients
INTRA_MAJORS_CORR = 0.8  # BTC and ETH move together
INTRA_ALTS_CORR = 0.6  # Alts follow each other
CROSS_GROUP_CORR = 0.5  # Alts follow the majors, loosely
DEFAULT_CORR = 0.4  # Unknown symbols
