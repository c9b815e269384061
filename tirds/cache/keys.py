"""Cache key patterns shared with the loader."""


def bars_key(symbol: str, timeframe: str) -> str:
    return f"bars:{symbol}:{timeframe}"


def quote_key(symbol: str) -> str:
    return f"quote:{symbol}"


def indicator_key(name: str, symbol: str) -> str:
    return f"indicator:{name}:{symbol}"


def reference_key(symbol: str) -> str:
    return f"ref:{symbol}"


def sentiment_key(source: str, symbol: str) -> str:
    return f"sentiment:{source}:{symbol}"
