"""
API route blueprints
"""
