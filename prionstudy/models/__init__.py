from prionstudy.models.consent import ConsentResponse, CONSENT_DECISIONS

__all__ = ["ConsentResponse", "CONSENT_DECISIONS"]
