"""Authentication and authorization.

Learn: This service never logs anyone in. Browsers present a stream token
minted by the main web app; the web app's backend presents a service API
key when it publishes events.
"""
