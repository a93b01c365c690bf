from sqlalchemy import Column, DateTime, Integer, String, func

from .base import Base

PLACEHOLDER = "-"


def _text(index: bool = False) -> Column:
    return Column(String, nullable=False, default=PLACEHOLDER, index=index)


class Student(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, autoincrement=True)
    student_name = _text(index=True)
    mobile_number = _text(index=True)
    email = _text(index=True)
    course = _text()
    center = _text()
    status = _text()
    attended_by = _text()
    created_by = _text()
    attended_at = _text()
    notes = _text()
    created_at = Column(DateTime, default=func.now(), index=True)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<Student(id={self.id}, student_name='{self.student_name}', mobile_number='{self.mobile_number}')>"
