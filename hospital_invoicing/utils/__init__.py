"""
Shared helpers for billing rules, validation, invoicing and reporting
"""
