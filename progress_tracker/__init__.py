"""
Learning-progress tracker: Firebase login and per-user progress records
"""

__version__ = '1.0.0'
