"""
Helpers shared by the stor8 unit tests and by tests of components built on
stor8
"""
