from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy import orm


class Base(orm.DeclarativeBase):
    pass


class City(Base):
    __tablename__ = "city"

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    name: orm.Mapped[str] = orm.mapped_column(sa.String(100))


class Address(Base):
    __tablename__ = "address"

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    city_id: orm.Mapped[int] = orm.mapped_column(sa.ForeignKey("city.id"))
    name: orm.Mapped[str] = orm.mapped_column(sa.String(100))


class Place(Base):
    __tablename__ = "place"

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    address_id: orm.Mapped[int] = orm.mapped_column(sa.ForeignKey("address.id"))
    name: orm.Mapped[str] = orm.mapped_column(sa.String(100))


class Comment(Base):
    __tablename__ = "comment"

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    place_id: orm.Mapped[int] = orm.mapped_column(sa.ForeignKey("place.id"))
    username: orm.Mapped[str] = orm.mapped_column(sa.String(100))
    mark: orm.Mapped[int]
