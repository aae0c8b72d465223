"""
Menu pipeline: image normalization, structured extraction and the shared
menu/order data models.
"""
