from market.utils.quotes import request_quote

__all__ = ["request_quote"]
