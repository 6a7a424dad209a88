"""
POSEMATCH Matching Service

Real-time elbow-angle matching of a live video feed against a reference pose.
"""
