from tally_server.db.session import Database

__all__ = ["Database"]
