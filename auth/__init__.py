"""
auth — User authentication module.

Provides:
  • Password hashing (bcrypt, upgrade-on-login)
  • Identity persistence (``CredentialStore``)
  • Server-side session tokens (``SessionManager``)
  • Login / logout state machine (``AuthenticationEngine``)
  • Register / change-password / change-email (``AccountMutationService``)
  • ``/user`` API routes
"""
