# State = everything needed to resume a tutoring session.

# The turn log is the only durable state. It holds the ordered messages of a
# chat and is saved as a Chat record after every turn.

# UI state is rebuilt from it on reload and is never persisted.
