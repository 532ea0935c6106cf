"""
models/ - Domain Models
=======================
Plain dataclasses and enums shared by the database and repository layers.
"""
