import os
import time
from typing import Optional

import structlog
from bson import ObjectId
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

import auth
import cart
import database
import sync
from logger import configure_logging
from schemas import (
    User, Menu, Menuclass, Shipping, Order, Personalorder,
    UserCreate, UserUpdate, TokenBody, KakaoLogin, CartAdd, CartCheck, CartRemove,
    MenuCreate, MenuUpdate, MenuclassCreate, MenuclassUpdate, ShippingCreate, ShippingUpdate,
    OrderCreate, OrderUpdate, PersonalorderCreate,
)

configure_logging()
logger = structlog.get_logger(__name__)

app = FastAPI(title="Bakery Ordering API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ===================== Errors & logging =====================
@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"err": exc.detail})


@app.exception_handler(RequestValidationError)
async def request_validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"err": _first_error(exc.errors())})


@app.exception_handler(ValidationError)
async def model_validation_error(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"err": _first_error(exc.errors())})


@app.exception_handler(Exception)
async def unexpected_error(request: Request, exc: Exception):
    logger.error("unhandled error", method=request.method, path=request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"err": str(exc)})


def _first_error(errors) -> str:
    if not errors:
        return "invalid request"
    first = errors[0]
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    return f"{where}: {first.get('msg')}" if where else first.get("msg", "invalid request")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "request",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 1),
    )
    return response


# ===================== Helpers =====================
def oid(value: Optional[str], entity: str) -> ObjectId:
    if not value or not ObjectId.is_valid(value):
        raise HTTPException(status_code=400, detail=f"invalid {entity} id")
    return ObjectId(value)


def require(**fields):
    """400 on the first field (in argument order) that is missing."""
    for name, value in fields.items():
        if value is None or value == "" or value == []:
            raise HTTPException(status_code=400, detail=f"{name} is required")


def changes_of(payload, *exclude: str) -> dict:
    return {k: v for k, v in payload.model_dump(exclude=set(exclude)).items() if v is not None}


def user_out(user: dict, *hidden: str) -> dict:
    return database.serialize_doc(auth.public_user(user, *hidden))


def get_user(user_id: ObjectId) -> dict:
    user = database.get_document_by_id("user", user_id)
    if not user:
        raise HTTPException(status_code=400, detail="no matched user")
    return user


# ===================== Public Endpoints =====================
@app.get("/")
def root():
    return {"message": "Bakery Ordering API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Available"
            response["connection_status"] = "Connected"
            response["collections"] = database.db.list_collection_names()
        else:
            response["database"] = "⚠️  Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
    response["database_name"] = "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set"
    return response


# ===================== Users =====================
@app.get("/user")
def list_users():
    return {"user": [user_out(u) for u in database.get_documents("user")]}


@app.post("/user/auth")
def user_by_token(payload: TokenBody):
    require(token=payload.token)
    user = auth.user_by_token(payload.token)
    return {"user": user_out(user, "socialId", "socialToken")}


@app.post("/user/kakaologin")
def kakao_login(payload: KakaoLogin):
    require(code=payload.code, redirectUri=payload.redirectUri)
    profile = auth.exchange_kakao_code(payload.code, payload.redirectUri)

    user = database.find_document("user", {"socialId": profile["socialId"]})
    if not user:
        if database.find_document("user", {"email": profile["email"]}):
            raise HTTPException(status_code=400, detail="Email already registered")
        user = database.create_document("user", User(
            name=profile["name"] or profile["socialId"],
            email=profile["email"],
            socialId=profile["socialId"],
            socialToken=profile["accessToken"],
        ))
    else:
        database.update_document("user", user["_id"], {"socialToken": profile["accessToken"]})

    user = auth.issue_session(user)
    logger.info("login", user_id=str(user["_id"]), provider="kakao")
    return {"user": user_out(user, "socialId", "socialToken")}


@app.post("/user/logout")
def logout(payload: TokenBody):
    require(token=payload.token)
    user = database.find_document("user", {"token": payload.token})
    if not user:
        raise HTTPException(status_code=400, detail="no matched user")
    if not user.get("socialToken"):
        raise HTTPException(status_code=400, detail="accessToken does not exist in user db")

    auth.kakao_logout(user["socialToken"])
    user = database.update_document(
        "user", user["_id"], {"socialToken": "", "token": "", "tokenExpiration": None}
    )
    logger.info("logout", user_id=str(user["_id"]))
    return {"user": user_out(user)}


@app.post("/user")
def create_user(payload: UserCreate):
    require(name=payload.name, email=payload.email, socialId=payload.socialId)
    if database.find_document("user", {"email": payload.email}):
        raise HTTPException(status_code=400, detail="Email already registered")
    user = database.create_document("user", User(**changes_of(payload)))
    return {"user": user_out(user)}


# Cart

@app.post("/user/cart")
def add_to_cart(payload: CartAdd):
    require(token=payload.token, menuId=payload.menuId)
    if not payload.quantity:
        raise HTTPException(status_code=400, detail="quantity is required")
    menu_id = oid(payload.menuId, "menu")
    user = auth.user_by_token(payload.token)
    return {"user": database.serialize_doc(cart.apply_cart_delta(user, menu_id, payload.quantity))}


@app.patch("/user/cart")
def check_cart(payload: CartCheck):
    require(token=payload.token, isChecked=payload.isChecked)
    menu_id = None
    if not payload.isAllMenus:
        require(menuId=payload.menuId)
        menu_id = oid(payload.menuId, "menu")
    user = auth.user_by_token(payload.token)
    updated = cart.set_checked(user, menu_id, payload.isChecked, all_menus=payload.isAllMenus)
    return {"user": database.serialize_doc(updated)}


@app.delete("/user/cart")
def remove_from_cart(payload: CartRemove):
    require(token=payload.token, menuId=payload.menuId)
    menu_id = oid(payload.menuId, "menu")
    user = auth.user_by_token(payload.token)
    return {"user": database.serialize_doc(cart.remove_from_cart(user, menu_id))}


@app.get("/user/{user_id}")
def get_user_by_id(user_id: str):
    user = database.get_document_by_id("user", oid(user_id, "user"))
    return {"user": user_out(user) if user else None}


@app.patch("/user/{user_id}")
def update_user(user_id: str, payload: UserUpdate):
    uid = oid(user_id, "user")
    require(token=payload.token)
    user = get_user(uid)
    auth.check_token(user, payload.token)

    changes = changes_of(payload, "token")
    if "email" in changes and changes["email"] != user.get("email"):
        if database.find_document("user", {"email": changes["email"]}):
            raise HTTPException(status_code=400, detail="Email already registered")
    user = database.update_document("user", uid, changes)
    return {"user": user_out(user)}


@app.delete("/user/{user_id}")
def delete_user(user_id: str, payload: TokenBody):
    uid = oid(user_id, "user")
    require(token=payload.token)
    user = get_user(uid)
    auth.check_token(user, payload.token)

    database.delete_document("user", uid)
    try:
        database.delete_documents("shipping", {"user": uid})
    except PyMongoError as exc:
        logger.warning("owned shippings not deleted", user_id=user_id, error=str(exc))
    return {"user": user_out(user)}


# ===================== Menu classes =====================
@app.get("/menuclass")
def list_menu_classes():
    return {"menuClass": database.serialize_doc(database.get_documents("menuclass"))}


@app.get("/menuclass/{menu_class_id}")
def get_menu_class(menu_class_id: str):
    menu_class = database.get_document_by_id("menuclass", oid(menu_class_id, "menu class"))
    return {"menuClass": database.serialize_doc(menu_class)}


@app.post("/menuclass")
def create_menu_class(payload: MenuclassCreate):
    require(name=payload.name, intro=payload.intro)
    menu_class = database.create_document("menuclass", Menuclass(**changes_of(payload)))
    return {"menuClass": database.serialize_doc(menu_class)}


@app.patch("/menuclass/{menu_class_id}")
def update_menu_class(menu_class_id: str, payload: MenuclassUpdate):
    class_id = oid(menu_class_id, "menu class")
    menu_class = database.get_document_by_id("menuclass", class_id)
    if not menu_class:
        raise HTTPException(status_code=400, detail="no matched menu class")

    changes = changes_of(payload)
    renamed = "name" in changes and changes["name"] != menu_class["name"]
    if renamed:
        changes["menus.$[].menuClass.name"] = changes["name"]
    menu_class = database.update_document("menuclass", class_id, changes)

    if renamed:
        try:
            database.update_documents(
                "menu", {"menuClass._id": class_id}, {"$set": {"menuClass.name": changes["name"]}}
            )
        except PyMongoError as exc:
            logger.warning("menu class rename not propagated", menu_class_id=menu_class_id, error=str(exc))
    return {"menuClass": database.serialize_doc(menu_class)}


@app.delete("/menuclass/{menu_class_id}")
def delete_menu_class(menu_class_id: str):
    class_id = oid(menu_class_id, "menu class")
    menu_class = database.get_document_by_id("menuclass", class_id)
    if not menu_class:
        raise HTTPException(status_code=400, detail="no matched menu class")
    if menu_class.get("menus"):
        raise HTTPException(status_code=400, detail="menu class has menus")
    database.delete_document("menuclass", class_id)
    return {"menuClass": database.serialize_doc(menu_class)}


# ===================== Menus =====================
@app.get("/menu")
def list_menus():
    return {"menu": database.serialize_doc(database.get_documents("menu"))}


@app.get("/menu/{menu_id}")
def get_menu(menu_id: str):
    return {"menu": database.serialize_doc(database.get_document_by_id("menu", oid(menu_id, "menu")))}


@app.post("/menu")
def create_menu(payload: MenuCreate):
    require(name=payload.name, price=payload.price, tag=payload.tag,
            menuClassId=payload.menuClassId, stock=payload.stock)
    if payload.price <= 0:
        raise HTTPException(status_code=400, detail="price must be positive")
    class_id = oid(payload.menuClassId, "menu class")
    menu_class = database.get_document_by_id("menuclass", class_id)
    if not menu_class:
        raise HTTPException(status_code=400, detail="Invalid menu class")

    menu = Menu(
        **changes_of(payload, "menuClassId"),
        menuClass={"_id": class_id, "name": menu_class["name"]},
    )
    doc = sync.create_child(sync.MENU_IN_CLASS, menu, class_id)
    return {"menu": database.serialize_doc(doc)}


@app.patch("/menu/{menu_id}")
def update_menu(menu_id: str, payload: MenuUpdate):
    mid = oid(menu_id, "menu")
    changes = changes_of(payload)
    menu = sync.update_child(sync.MENU_IN_CLASS, mid, changes)
    if not menu:
        raise HTTPException(status_code=400, detail="no matched menu")
    return {"menu": database.serialize_doc(menu)}


@app.delete("/menu/{menu_id}")
def delete_menu(menu_id: str):
    menu = sync.delete_child(sync.MENU_IN_CLASS, oid(menu_id, "menu"))
    if not menu:
        raise HTTPException(status_code=400, detail="Invalid menu")
    return {"menu": database.serialize_doc(menu)}


# ===================== Shipping =====================
@app.get("/shipping")
def list_shippings():
    return {"shipping": database.serialize_doc(database.get_documents("shipping"))}


@app.get("/shipping/{user_id}")
def list_user_shippings(user_id: str):
    shippings = database.get_documents("shipping", {"user": oid(user_id, "user")})
    return {"shipping": database.serialize_doc(shippings)}


@app.post("/shipping/{user_id}")
def create_shipping(user_id: str, payload: ShippingCreate):
    require(name=payload.name, phone=payload.phone, address=payload.address, tag=payload.tag)
    uid = oid(user_id, "user")
    get_user(uid)
    shipping = Shipping(**changes_of(payload), user=uid)
    doc = sync.create_child(sync.SHIPPING_IN_USER, shipping, uid)
    return {"shipping": database.serialize_doc(doc)}


def _owned_shipping(shipping_id: str, token: Optional[str]) -> dict:
    sid = oid(shipping_id, "shipping")
    require(token=token)
    shipping = database.get_document_by_id("shipping", sid)
    if not shipping:
        raise HTTPException(status_code=400, detail="no matched shipping")
    auth.check_token(get_user(shipping["user"]), token)
    return shipping


@app.patch("/shipping/{shipping_id}")
def update_shipping(shipping_id: str, payload: ShippingUpdate):
    shipping = _owned_shipping(shipping_id, payload.token)
    updated = sync.update_child(sync.SHIPPING_IN_USER, shipping["_id"], changes_of(payload, "token"))
    return {"shipping": database.serialize_doc(updated)}


@app.delete("/shipping/{shipping_id}")
def delete_shipping(shipping_id: str, payload: TokenBody):
    shipping = _owned_shipping(shipping_id, payload.token)
    deleted = sync.delete_child(sync.SHIPPING_IN_USER, shipping["_id"])
    if not deleted:
        raise HTTPException(status_code=400, detail="no matched shipping")
    return {"shipping": database.serialize_doc(deleted)}


# ===================== Orders =====================
@app.get("/order")
def list_orders():
    return {"order": database.serialize_doc(database.get_documents("order", sort=[("created_at", -1)]))}


@app.get("/order/{order_id}")
def get_order(order_id: str):
    return {"order": database.serialize_doc(database.get_document_by_id("order", oid(order_id, "order")))}


@app.post("/order/{orderer_id}")
def create_order(orderer_id: str, payload: OrderCreate):
    require(product=payload.product)
    orderer_oid = oid(orderer_id, "ordererId")
    require(shippingId=payload.shippingId, payment=payload.payment,
            orderPrice=payload.orderPrice, payedMoney=payload.payedMoney)
    shipping_oid = oid(payload.shippingId, "shipping")
    if payload.mileageUse < 0:
        raise HTTPException(status_code=400, detail="mileageUse must not be negative")

    orderer = database.get_document_by_id("user", orderer_oid)
    if not orderer:
        raise HTTPException(status_code=400, detail="invalid orderer")
    if payload.mileageUse > orderer.get("mileage", 0):
        raise HTTPException(status_code=400, detail="mileage use should not be more than the orderer's mileage")
    shipping = database.get_document_by_id("shipping", shipping_oid)
    if not shipping:
        raise HTTPException(status_code=400, detail="invalid shipping")

    order = Order(
        **changes_of(payload, "shippingId"),
        orderer={
            "_id": orderer["_id"],
            "username": orderer.get("name"),
            "phone": orderer.get("phone"),
            "email": orderer.get("email"),
        },
        shipping={
            "_id": shipping["_id"],
            "name": shipping["name"],
            "phone": shipping["phone"],
            "address": shipping["address"],
            "request": shipping.get("request", ""),
        },
    )
    doc = sync.create_child(sync.ORDER_IN_USER, order, orderer_oid)
    return {"order": database.serialize_doc(doc)}


@app.patch("/order/{order_id}")
def update_order(order_id: str, payload: OrderUpdate):
    order = sync.update_child(sync.ORDER_IN_USER, oid(order_id, "order"), changes_of(payload))
    if not order:
        raise HTTPException(status_code=400, detail="no matched order")
    return {"order": database.serialize_doc(order)}


@app.delete("/order/{order_id}")
def delete_order(order_id: str):
    order = sync.delete_child(sync.ORDER_IN_USER, oid(order_id, "order"))
    if not order:
        raise HTTPException(status_code=400, detail="Invalid order")
    return {"order": database.serialize_doc(order)}


# ===================== Personal orders =====================
@app.get("/personalorder")
def list_personal_orders():
    return {"personalOrder": database.serialize_doc(database.get_documents("personalorder"))}


@app.post("/personalorder")
def create_personal_order(payload: PersonalorderCreate):
    require(product=payload.product, ordererId=payload.ordererId,
            shipping=payload.shipping, payment=payload.payment)
    orderer_oid = oid(payload.ordererId, "ordererId")
    get_user(orderer_oid)
    order = Personalorder(**changes_of(payload, "ordererId"), orderer=orderer_oid)
    doc = database.create_document("personalorder", order)
    return {"personalOrder": database.serialize_doc(doc)}


# ===================== Maintenance =====================
@app.post("/admin/reconcile")
def reconcile():
    return {"rebuilt": sync.rebuild_all()}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
