"""Domain layer for finledger application.

Services are imported from their modules (``finledger.domain.linking`` and
so on); this package only groups them.
"""
