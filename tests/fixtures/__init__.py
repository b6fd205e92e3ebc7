# tests/fixtures/__init__.py
"""Example domain and recording factories for protofixture tests.

Available modules:
- northwind: ORM models and the seed scaffold
- factories: Northwind factories whose hooks record every call
"""
