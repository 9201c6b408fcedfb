"""
Delivery Service - order lifecycle and courier dispatch
"""
