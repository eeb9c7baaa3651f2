"""
Persistent cart, chat and session state for the ESTIA Learning course shop.
"""
