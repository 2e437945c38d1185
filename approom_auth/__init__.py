"""
Authentication and authorization core for the approom web application.

The package is organized around a handful of components:

- :mod:`.passwords` hashes and checks local credentials.
- :mod:`.tokens` issues and validates signed API tokens.
- :mod:`.verification` manages single-use proofs (email verification codes).
- :mod:`.identity` promotes bridged (third-party) logins into local users.
- :mod:`.acl` decides whether a user may perform an action on a resource.

Persistence lives in :mod:`.services`; the Flask integration is in
:mod:`.factory`, :mod:`.routes` and :mod:`.decorators`.
"""
