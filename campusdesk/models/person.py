# campusdesk/models/person.py
from sqlalchemy import Column, String, Date, Boolean, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from .base import Base


class Person(Base):
    __tablename__ = "persons"

    first_name = Column(String(100), nullable=False)
    middle_name = Column(String(100))
    last_name = Column(String(100), nullable=False)
    display_name = Column(String(255))
    dob = Column(Date)
    gender = Column(String(20))
    photo_url = Column(String(500))

    contacts = relationship("PersonContact", back_populates="person")


class PersonContact(Base):
    __tablename__ = "person_contacts"

    person_id = Column(UUID(as_uuid=True), ForeignKey("persons.id"), nullable=False, index=True)
    contact_type = Column(String(20), nullable=False)  # email, phone
    contact_value = Column(String(255), nullable=False)
    is_primary = Column(Boolean, default=False, nullable=False)

    person = relationship("Person", back_populates="contacts")
