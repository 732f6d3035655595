"""
Aadhaar E-Voting System backend.
"""
