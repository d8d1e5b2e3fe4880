"""
Credit Card Payment Plans

Turns credit card expense transactions into installment or revolving
repayment schedules, tracks each scheduled payment, and reports what is due.
"""

__version__ = "1.0.0"
