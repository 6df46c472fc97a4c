"""
Domain rules shared by the storage backends.

Nothing here performs I/O: record types, partial updates, the department
list, listing filters and the history read model.
"""
