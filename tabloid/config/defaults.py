"""
Default feed sources and tickers seeded into an empty database.

Sources use the Twitter user id as their identity. Slots 0-5 map to the
six display positions.
"""

DEFAULT_SOURCES = [
    {
        "name": "Coinbase",
        "handle": "coinbase",
        "upstream_account_id": "3437070832",
        "slot": 0,
        "logo_url": "https://pbs.twimg.com/profile_images/1758831397866909696/E8pZ3l8o_400x400.jpg",
    },
    {
        "name": "CZ Binance",
        "handle": "cz_binance",
        "upstream_account_id": "902926941413453824",
        "slot": 1,
        "logo_url": "https://pbs.twimg.com/profile_images/1707011536194895872/2Evx550a_400x400.jpg",
    },
    {
        "name": "Glassnode",
        "handle": "glassnode",
        "upstream_account_id": "955471816132923392",
        "slot": 2,
        "logo_url": "https://pbs.twimg.com/profile_images/1452999896173195270/h_9j5uN5_400x400.png",
    },
    {
        "name": "DeFi Pulse",
        "handle": "defipulse",
        "upstream_account_id": "1104038581163393024",
        "slot": 3,
        "logo_url": "https://pbs.twimg.com/profile_images/1104038884531228672/p2_1n75p_400x400.png",
    },
    {
        "name": "Wu Blockchain",
        "handle": "WuBlockchain",
        "upstream_account_id": "1291227168380317696",
        "slot": 4,
        "logo_url": "https://pbs.twimg.com/profile_images/1396635074457014272/9HHe9G4L_400x400.jpg",
    },
    {
        "name": "Hsaka",
        "handle": "HsakaTrades",
        "upstream_account_id": "971400609640239104",
        "slot": 5,
        "logo_url": "https://pbs.twimg.com/profile_images/1710031006133968896/x25Ab0F9_400x400.jpg",
    },
]

# CoinGecko ids
DEFAULT_TICKERS = [
    {"id": "bitcoin", "symbol": "BTC", "name": "Bitcoin", "display_order": 0},
    {"id": "ethereum", "symbol": "ETH", "name": "Ethereum", "display_order": 1},
    {"id": "solana", "symbol": "SOL", "name": "Solana", "display_order": 2},
]
