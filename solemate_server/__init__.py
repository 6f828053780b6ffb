"""SoleMate storefront session and cart client."""

__version__ = "0.1.0"
