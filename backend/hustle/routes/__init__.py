# backend/hustle/routes/__init__.py
