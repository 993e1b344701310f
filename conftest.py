"""
Root pytest configuration.
Switches the app to testing mode before anything imports the settings.
"""
import os

# Set testing environment before importing app
os.environ["TESTING"] = "True"
os.environ["DEBUG"] = "False"
os.environ.setdefault("TWILIO_ACCOUNT_SID", "")
os.environ.setdefault("AI_GATEWAY_API_KEY", "")
