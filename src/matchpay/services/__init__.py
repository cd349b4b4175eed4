from matchpay.services.matches import MatchService

__all__ = ["MatchService"]
