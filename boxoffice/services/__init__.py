"""
Scheduling and reservation services
"""
