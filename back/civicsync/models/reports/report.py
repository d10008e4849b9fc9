# Third-party imports
from sqlalchemy import Column, Enum as SQLEnum, Float, String, Text

# Local application imports
from civicsync.models.base import Base
from civicsync.models.mixins.uuid_timestamp import UUIDTimeStampMixin
from civicsync.schemas.reports import Report, ReportCategory, ReportStatus


def _enum_values(enum_cls: type) -> list[str]:
    # persist "in_progress", not the member name
    return [member.value for member in enum_cls]


class ReportRow(Base, UUIDTimeStampMixin):
    __tablename__ = "reports"

    # Report details
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(
        SQLEnum(ReportCategory, name="report_category", values_callable=_enum_values),
        nullable=False,
        index=True,
    )
    status = Column(
        SQLEnum(ReportStatus, name="report_status", values_callable=_enum_values),
        nullable=False,
        default=ReportStatus.OPEN,
        index=True,
    )

    # Location information
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    address = Column(Text, nullable=True)

    # Media
    image_url = Column(String(1024), nullable=True)

    def to_report(self) -> Report:
        return Report.model_validate(
            {
                "id": str(self.id),
                "title": self.title,
                "description": self.description,
                "category": self.category,
                "status": self.status,
                "latitude": self.latitude,
                "longitude": self.longitude,
                "address": self.address,
                "image_url": self.image_url,
                "created_at": self.created_at,
                "updated_at": self.updated_at,
            }
        )
