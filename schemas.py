"""
Database Schemas for the Bakery Ordering Platform

Each Pydantic model below corresponds to a MongoDB collection.
The collection name is the lowercase class name (e.g., MenuClass -> "menuclass").

Embedded snapshots (``MenuClass.menus``, ``User.shippings``, ``User.orders``,
``User.cart``) are plain dicts holding a copy of the child document, ``_id``
included, taken at write time.
"""
from datetime import datetime
from typing import List, Optional, Any, Dict
from pydantic import BaseModel, Field, EmailStr


class User(BaseModel):
    name: str = Field(..., description="Display name")
    email: EmailStr = Field(..., description="Unique email address")
    phone: str = Field("01000000000", description="Contact phone")
    profileImageUrl: Optional[str] = None
    socialId: str = Field(..., description="Provider identity, e.g. kakao_1234")
    socialToken: str = ""
    token: str = ""
    tokenExpiration: Optional[datetime] = None
    mileage: int = Field(0, ge=0)
    shippings: List[dict] = Field(default_factory=list)
    orders: List[dict] = Field(default_factory=list)
    cart: List[dict] = Field(default_factory=list)


class Menu(BaseModel):
    name: str
    price: float = Field(..., gt=0)
    tag: str
    stock: int = Field(0, ge=0)
    menuClass: Dict[str, Any] = Field(..., description="{_id, name} of the owning menu class")
    orderType: str = "delivery"
    isPickup: bool = True
    isDelivery: bool = True
    isPresent: bool = False
    imageUrl: Optional[str] = None
    intro: Optional[str] = None
    options: List[Any] = Field(default_factory=list)


class Menuclass(BaseModel):
    name: str
    intro: str
    orderType: str = "delivery"
    menus: List[dict] = Field(default_factory=list)


class Shipping(BaseModel):
    name: str
    phone: str
    address: str
    request: str = ""
    tag: str = "배송지"
    user: Any = Field(..., description="Owning user _id")


class Order(BaseModel):
    product: List[Any] = Field(..., description="Ordered menu snapshots")
    orderer: Dict[str, Any] = Field(..., description="{_id, username, phone, email}")
    shipping: Dict[str, Any] = Field(..., description="Shipping snapshot")
    mileageUse: int = Field(0, ge=0)
    coupon: Optional[str] = None
    payment: str
    deliveryDate: Optional[datetime] = None
    pickupDate: Optional[datetime] = None
    type: str = "개인"
    status: str = "결제완료"
    orderPrice: float
    payedMoney: float


class Personalorder(BaseModel):
    product: List[Any]
    orderer: Any = Field(..., description="Orderer user _id")
    shipping: Dict[str, Any]
    mileageUse: int = 0
    coupon: Optional[str] = None
    payment: str
    status: str = "결제완료"


# Request bodies. Every field is optional here; create routes check presence
# themselves so the error names the missing field. Patch bodies carry the value
# constraints of the stored model, since a patch never goes through it.

class UserCreate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    profileImageUrl: Optional[str] = None
    socialId: Optional[str] = None


class UserUpdate(BaseModel):
    token: Optional[str] = None
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, min_length=1)
    profileImageUrl: Optional[str] = None


class TokenBody(BaseModel):
    token: Optional[str] = None


class KakaoLogin(BaseModel):
    code: Optional[str] = None
    redirectUri: Optional[str] = None


class CartAdd(BaseModel):
    token: Optional[str] = None
    menuId: Optional[str] = None
    quantity: Optional[int] = None


class CartCheck(BaseModel):
    token: Optional[str] = None
    menuId: Optional[str] = None
    isChecked: Optional[bool] = None
    isAllMenus: bool = False


class CartRemove(BaseModel):
    token: Optional[str] = None
    menuId: Optional[str] = None


class MenuCreate(BaseModel):
    name: Optional[str] = None
    price: Optional[float] = None
    tag: Optional[str] = None
    menuClassId: Optional[str] = None
    stock: Optional[int] = None
    orderType: Optional[str] = None
    isPickup: Optional[bool] = None
    isDelivery: Optional[bool] = None
    isPresent: Optional[bool] = None
    imageUrl: Optional[str] = None
    intro: Optional[str] = None
    options: Optional[List[Any]] = None


class MenuUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, gt=0)
    tag: Optional[str] = Field(None, min_length=1)
    stock: Optional[int] = Field(None, ge=0)
    orderType: Optional[str] = Field(None, min_length=1)
    isPickup: Optional[bool] = None
    isDelivery: Optional[bool] = None
    isPresent: Optional[bool] = None
    imageUrl: Optional[str] = None
    intro: Optional[str] = None
    options: Optional[List[Any]] = None


class MenuclassCreate(BaseModel):
    name: Optional[str] = None
    intro: Optional[str] = None
    orderType: Optional[str] = None


class MenuclassUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    intro: Optional[str] = Field(None, min_length=1)
    orderType: Optional[str] = Field(None, min_length=1)


class ShippingCreate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    request: Optional[str] = None
    tag: Optional[str] = None


class ShippingUpdate(BaseModel):
    token: Optional[str] = None
    name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = Field(None, min_length=1)
    address: Optional[str] = Field(None, min_length=1)
    request: Optional[str] = None
    tag: Optional[str] = Field(None, min_length=1)


class OrderCreate(BaseModel):
    product: Optional[List[Any]] = None
    shippingId: Optional[str] = None
    mileageUse: int = 0
    coupon: Optional[str] = None
    payment: Optional[str] = None
    orderPrice: Optional[float] = None
    payedMoney: Optional[float] = None
    deliveryDate: Optional[datetime] = None
    pickupDate: Optional[datetime] = None
    type: Optional[str] = None


class OrderUpdate(BaseModel):
    shipping: Optional[Dict[str, Any]] = None
    status: Optional[str] = None
    deliveryDate: Optional[datetime] = None
    pickupDate: Optional[datetime] = None


class PersonalorderCreate(BaseModel):
    product: Optional[List[Any]] = None
    ordererId: Optional[str] = None
    shipping: Optional[Dict[str, Any]] = None
    mileageUse: int = 0
    coupon: Optional[str] = None
    payment: Optional[str] = None
