"""ParaConnect Realtime — live case and notification updates.

The realtime layer of the Let's-ParaConnect marketplace: attorneys and
paralegals watching a case get pushed case updates, new messages and
document uploads over Server-Sent Events, without polling.
"""

__version__ = "0.1.0"
