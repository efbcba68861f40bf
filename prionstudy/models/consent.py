from sqlalchemy import Column, String, Text, CheckConstraint
from prionstudy.database import Base

CONSENT_DECISIONS = ("accept", "more_info", "decline")


class ConsentResponse(Base):
    __tablename__ = "responses"
    __table_args__ = (
        CheckConstraint(
            "response IN ('accept', 'more_info', 'decline')",
            name="ck_responses_response",
        ),
    )

    participant_id = Column(String(128), primary_key=True)
    response = Column(String(20), nullable=False)  # "accept" | "more_info" | "decline"
    ts_utc = Column(String(40), nullable=False)
    ip = Column(String(64))
    user_agent = Column(Text)
