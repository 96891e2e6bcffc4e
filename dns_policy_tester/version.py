# dns_policy_tester/version.py

__version__ = "1.0.0"
__author__ = "DNS Policy Tester Team"
