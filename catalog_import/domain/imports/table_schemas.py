"""
Record schemas for the master-data tables that accept bulk imports.

Header aliases cover the column names found in the spreadsheets the admin
team actually uploads (English and Indonesian variants). Key fields are the
columns a re-import matches on to update rows instead of adding new ones.
"""
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from catalog_import.domain.imports.validators import (
    PydanticRowValidator,
    ValidatorRegistry,
    preset_check,
)


class _ImportRecord(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, coerce_numbers_to_str=True)


class ReferenceSheetRecord(_ImportRecord):
    kode_item: str = Field(max_length=50)
    nama_item: Optional[str] = Field(default=None, max_length=255)
    kelompok: Optional[str] = Field(default=None, max_length=100)
    family: Optional[str] = Field(default=None, max_length=100)
    original_code: Optional[str] = Field(default=None, max_length=150)
    color: Optional[str] = Field(default=None, max_length=100)
    kode_material: Optional[str] = Field(default=None, max_length=100)
    deskripsi_material: Optional[str] = Field(default=None, max_length=500)
    kode_motif: Optional[str] = Field(default=None, max_length=100)
    deskripsi_motif: Optional[str] = Field(default=None, max_length=500)

    check_kode_item = field_validator("kode_item")(preset_check("item_code"))


class StoreRecord(_ImportRecord):
    kode_gudang: str = Field(max_length=50)
    nama_gudang: str = Field(max_length=255)
    jenis_gudang: Optional[str] = Field(default=None, max_length=50)
    store_type: str = Field(default="independent", max_length=100)
    store_category: str = Field(default="normal", max_length=20)

    check_kode_gudang = field_validator("kode_gudang")(preset_check("store_code"))


class StaffRecord(_ImportRecord):
    nik: str = Field(max_length=50)
    email: str = Field(max_length=255)
    nama_lengkap: str = Field(max_length=255)
    kota: str = Field(max_length=100)
    alamat: str = Field(max_length=255)
    no_hp: Optional[str] = Field(default=None, max_length=30)
    jabatan: Optional[str] = Field(default=None, max_length=100)

    check_nik = field_validator("nik")(preset_check("alphanumeric_id"))
    check_email = field_validator("email")(preset_check("email"))
    check_phone = field_validator("no_hp")(preset_check("phone"))


class PricelistRecord(_ImportRecord):
    kode_item: str = Field(max_length=50)
    sn: Optional[str] = Field(default=None, max_length=100)
    kelompok: Optional[str] = Field(default=None, max_length=50)
    family: Optional[str] = Field(default=None, max_length=50)
    deskripsi_material: Optional[str] = Field(default=None, max_length=255)
    kode_motif: Optional[str] = Field(default=None, max_length=50)
    nama_motif: Optional[str] = Field(default=None, max_length=255)
    normal_price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    sp: Optional[Decimal] = Field(default=None, ge=0, max_digits=12, decimal_places=2)

    check_kode_item = field_validator("kode_item")(preset_check("item_code"))


class PaymentMethodRecord(_ImportRecord):
    merchant_name: str = Field(max_length=255)
    edc_type: str = Field(max_length=50)
    admin_fee: Decimal = Field(default=Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    edc_key: Optional[str] = Field(default=None, max_length=100)


class OpeningStockRecord(_ImportRecord):
    kode_item: str = Field(max_length=50)
    sn: Optional[str] = Field(default=None, max_length=100)
    nama_item: Optional[str] = Field(default=None, max_length=255)
    qty: int = Field(ge=0)

    check_kode_item = field_validator("kode_item")(preset_check("item_code"))


_ITEM_CODE_ALIASES = {
    "item code": "kode_item",
    "itemcode": "kode_item",
    "code": "kode_item",
    "kode": "kode_item",
}

_SERIAL_ALIASES = {
    "s n": "sn",
    "serial": "sn",
    "serial number": "sn",
}


def build_default_validators() -> ValidatorRegistry:
    """Validators for every table the admin screens allow importing into."""
    return ValidatorRegistry(
        {
            "reference-sheet": PydanticRowValidator(
                ReferenceSheetRecord,
                {**_ITEM_CODE_ALIASES, "item name": "nama_item", "name": "nama_item", "nama": "nama_item"},
                key_fields=("kode_item",),
            ),
            "stores": PydanticRowValidator(
                StoreRecord,
                {"store code": "kode_gudang", "store name": "nama_gudang", "store type": "store_type"},
                key_fields=("kode_gudang",),
            ),
            "staff": PydanticRowValidator(
                StaffRecord,
                {"name": "nama_lengkap", "full name": "nama_lengkap", "city": "kota",
                 "address": "alamat", "phone": "no_hp", "position": "jabatan"},
                key_fields=("nik",),
            ),
            "pricelist": PydanticRowValidator(
                PricelistRecord,
                {**_ITEM_CODE_ALIASES, **_SERIAL_ALIASES, "price": "normal_price",
                 "normal price": "normal_price", "special price": "sp"},
                key_fields=("kode_item", "sn"),
            ),
            "payment-methods": PydanticRowValidator(
                PaymentMethodRecord,
                {"merchant": "merchant_name", "type": "edc_type", "fee": "admin_fee", "key": "edc_key"},
                key_fields=("merchant_name", "edc_type"),
            ),
            "opening-stock": PydanticRowValidator(
                OpeningStockRecord,
                {**_ITEM_CODE_ALIASES, **_SERIAL_ALIASES, "item name": "nama_item",
                 "quantity": "qty", "jumlah": "qty", "stok": "qty", "stock": "qty"},
                key_fields=("kode_item", "sn"),
            ),
        }
    )
