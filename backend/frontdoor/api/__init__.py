"""
HTTP surface of the front door.
"""
