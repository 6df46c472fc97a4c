"""
High-level use cases for Thoughtbox.

Each service module orchestrates the storage gateway to implement business
rules that request handlers would otherwise repeat (first-time setup, user
creation, password checks).
"""
