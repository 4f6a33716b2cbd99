"""
FastAPI routers for the bulk import service.
"""
