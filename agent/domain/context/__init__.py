# Session context for the tutor

# +---------------------+
# |      Turn log       |   (Durable, append-only, per chat)
# |---------------------|
# | User messages       |
# | Assistant text      |
# | Tool results        |
# +---------------------+
#         |
#         v  set_ai_state (authenticated only)
# +---------------------+
# |   Session store     |   (Chat records keyed by id + user)
# +---------------------+
#         |
#         v  get_ui_state
# +---------------------+
# |      UI state       |   (Derived, never stored)
# +---------------------+
