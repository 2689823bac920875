"""
Serving — FastAPI application exposing load control, sync and search.
"""
