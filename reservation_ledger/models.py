from sqlalchemy import Column, Integer, BigInteger, String, Boolean, DateTime, ForeignKey, Numeric, JSON
from sqlalchemy.sql import func
from reservation_ledger.database import Base

# ================================
# Service Catalog & Seat Calendar
# ================================
class ServiceRecord(Base):
    __tablename__ = "services"

    service_id = Column(String(32), primary_key=True)
    position = Column(Integer, nullable=False)
    name = Column(String(255), nullable=False)
    kind = Column(String(20), nullable=False, default="express")
    has_pantry_car = Column(Boolean, default=False)
    source = Column(String(255), nullable=False)
    destination = Column(String(255), nullable=False)
    stops = Column(JSON, default=list)
    capacity = Column(Integer, nullable=False)
    base_fare = Column(Numeric(10, 2), nullable=False)

class SeatAllocationRecord(Base):
    __tablename__ = "seat_allocations"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    service_id = Column(String(32), ForeignKey("services.service_id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    date = Column(String(10), nullable=False)
    available_seats = Column(Integer, nullable=False)

# ================================
# Bookings & Waitlist
# ================================
class BookingRecord(Base):
    __tablename__ = "bookings"

    pnr = Column(String(20), primary_key=True)
    position = Column(Integer, nullable=False, index=True)
    service_id = Column(String(32), nullable=False, index=True)
    date = Column(String(10), nullable=False)
    total_fare = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), nullable=False)
    passengers = Column(JSON, nullable=False)

class WaitlistRecord(Base):
    __tablename__ = "waitlist_entries"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    pnr = Column(String(20), nullable=False, unique=True)
    service_id = Column(String(32), nullable=False)
    date = Column(String(10), nullable=False)
    num_seats = Column(Integer, nullable=False)
    rank = Column(Integer, nullable=False)

# ================================
# PNR Counter, Journal & Actors
# ================================
class PnrCounterRecord(Base):
    __tablename__ = "pnr_counter"

    id = Column(Integer, primary_key=True)
    value = Column(String(32), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

class JournalRecord(Base):
    __tablename__ = "transaction_journal"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    pnr = Column(String(20), nullable=False, index=True)
    action = Column(String(64), nullable=False)
    outcome = Column(String(64), nullable=False)
    recorded_at = Column(DateTime(timezone=True), nullable=False)

class ActorRecord(Base):
    __tablename__ = "actors"

    username = Column(String(100), primary_key=True)
    role = Column(String(20), nullable=False)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
