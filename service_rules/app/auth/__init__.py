"""
Session token handling for the Rule Store Service.
"""
