# API module - routers are included by main.py
