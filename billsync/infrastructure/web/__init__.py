"""
HTTP surface: FastAPI dependencies, middleware and routers.
"""
