from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict

from .mapping import Mapping, integer, keyword, long_, nested, text


class Entity(BaseModel):
    # a hit carrying fields the type does not declare is not that type
    model_config = ConfigDict(extra="forbid")


# ---- area: country > region > province > city > district ----
class District(Entity):
    id: Optional[int] = None
    name: Optional[str] = None
    code: Optional[int] = None


class City(Entity):
    id: Optional[int] = None
    district: Optional[District] = None


class Province(Entity):
    id: Optional[int] = None
    city: Optional[City] = None


class Region(Entity):
    id: Optional[int] = None
    province: Optional[Province] = None


class Country(Entity):
    id: Optional[int] = None
    region: Optional[Region] = None


# ---- user group ----
class User(Entity):
    id: Optional[int] = None
    first: Optional[str] = None
    last: Optional[str] = None


class UserGroup(Entity):
    id: Optional[int] = None
    group: Optional[str] = None
    user: Optional[User] = None


def country_mapping() -> Mapping:
    district = nested(id=long_(), name=keyword(), code=integer())
    city = nested(id=long_(), district=district)
    province = nested(id=long_(), city=city)
    region = nested(id=long_(), province=province)
    return Mapping(properties={"id": long_(), "region": region})


def user_group_mapping() -> Mapping:
    return Mapping(properties={
        "id": long_(),
        "group": text(fielddata=True),
        "user": nested(id=long_(), first=keyword(), last=keyword()),
    })
