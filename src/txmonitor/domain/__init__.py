from . import models, events, errors

__all__ = ["models", "events", "errors"]
