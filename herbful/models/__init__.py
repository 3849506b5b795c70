"""
Record types stored in the collection tree.
"""
