from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from equipment_monitoring.db.base import Base


class StatusEquipment(Base):
    __tablename__ = "StatusEquipment"

    StatusEquipmentID = Column(Integer, primary_key=True)
    Name = Column(String(50), nullable=False, unique=True)


class StatusReservation(Base):
    __tablename__ = "StatusReservation"

    StatusReservationID = Column(Integer, primary_key=True)
    Name = Column(String(50), nullable=False, unique=True)


class StatusHistory(Base):
    __tablename__ = "StatusHistory"

    StatusHistoryID = Column(Integer, primary_key=True)
    Name = Column(String(50), nullable=False, unique=True)


class EquipmentType(Base):
    __tablename__ = "EquipmentTypes"

    TypeID = Column(Integer, primary_key=True)
    Name = Column(String(50), nullable=False, unique=True)


class Role(Base):
    __tablename__ = "Roles"

    RoleID = Column(Integer, primary_key=True)
    Name = Column(String(50), nullable=False, unique=True)


class User(Base):
    __tablename__ = "Users"

    UserID = Column(Integer, primary_key=True)
    Username = Column(String(100), nullable=False, unique=True)
    Email = Column(String(255), nullable=False, unique=True)
    PasswordHash = Column(String(256))
    PasswordSalt = Column(String(64))
    RoleID = Column(Integer, ForeignKey("Roles.RoleID"), nullable=False)
    IsActive = Column(Boolean, default=True)
    CreatedDate = Column(DateTime, server_default=func.now())

    Role = relationship("Role")


class Equipment(Base):
    __tablename__ = "Equipment"

    EquipmentID = Column(Integer, primary_key=True)
    Name = Column(String(255), nullable=False)
    SerialNumber = Column(String(255), nullable=False, unique=True)
    StatusEquipmentID = Column(Integer, ForeignKey("StatusEquipment.StatusEquipmentID"), nullable=False)
    TypeID = Column(Integer, ForeignKey("EquipmentTypes.TypeID"), nullable=False)
    CreatedBy = Column(Integer)
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    Status = relationship("StatusEquipment")
    Type = relationship("EquipmentType")
    Reservations = relationship("Reservation", back_populates="Equipment")
    HistoryEntries = relationship("History", back_populates="Equipment")


class Reservation(Base):
    __tablename__ = "Reservations"

    ReservationID = Column(Integer, primary_key=True)
    EquipmentID = Column(Integer, ForeignKey("Equipment.EquipmentID"), nullable=False, index=True)
    UserID = Column(Integer, ForeignKey("Users.UserID"), nullable=False)
    ResponsibleID = Column(Integer, ForeignKey("Users.UserID"), nullable=False)
    StartDate = Column(DateTime, nullable=False)
    EndDate = Column(DateTime, nullable=False)
    StatusReservationID = Column(Integer, ForeignKey("StatusReservation.StatusReservationID"), nullable=False)
    CreatedBy = Column(Integer)
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    Equipment = relationship("Equipment", back_populates="Reservations")
    User = relationship("User", foreign_keys=[UserID])
    Responsible = relationship("User", foreign_keys=[ResponsibleID])
    Status = relationship("StatusReservation")


class History(Base):
    __tablename__ = "History"

    HistoryID = Column(Integer, primary_key=True)
    EquipmentID = Column(Integer, ForeignKey("Equipment.EquipmentID"), nullable=False, index=True)
    UserID = Column(Integer, ForeignKey("Users.UserID"), nullable=False)
    ResponsibleID = Column(Integer, ForeignKey("Users.UserID"), nullable=False)
    StatusHistoryID = Column(Integer, ForeignKey("StatusHistory.StatusHistoryID"), nullable=False)
    Date = Column(DateTime, nullable=False)
    CreatedBy = Column(Integer)
    CreatedDate = Column(DateTime, server_default=func.now())

    Equipment = relationship("Equipment", back_populates="HistoryEntries")
    User = relationship("User", foreign_keys=[UserID])
    Responsible = relationship("User", foreign_keys=[ResponsibleID])
    Status = relationship("StatusHistory")


class AuditLog(Base):
    __tablename__ = "AuditLogs"

    AuditID = Column(Integer, primary_key=True)
    EntityType = Column(String(50), nullable=False)
    EntityID = Column(Integer, nullable=False)
    Action = Column(String(100), nullable=False)
    Details = Column(String(2000))
    UserID = Column(Integer)
    CreatedAt = Column(DateTime, server_default=func.now())
