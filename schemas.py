from pydantic import BaseModel, ConfigDict, Field, field_validator


class CashbackCategoryIn(BaseModel):
    name: str
    percent: float

    @field_validator("percent", mode="before")
    @classmethod
    def reject_bool_percent(cls, value):
        if isinstance(value, bool):
            raise ValueError("percent must be a number, not a boolean")
        return value


class BankCategoriesIn(BaseModel):
    name: str
    categories: list[CashbackCategoryIn] = Field(default_factory=list)


class CashbackMonthIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    month: str
    banks: list[BankCategoriesIn] = Field(default_factory=list)


class BankOut(BaseModel):
    model_config = ConfigDict(extra="forbid", from_attributes=True)

    id: int
    name: str


class CategoryOut(BaseModel):
    model_config = ConfigDict(extra="forbid", from_attributes=True)

    id: int
    name: str


class CashbackCategoryOut(BaseModel):
    model_config = ConfigDict(extra="forbid")

    category: CategoryOut
    percent: float


class BankWithCategoriesOut(BaseModel):
    model_config = ConfigDict(extra="forbid")

    bank: BankOut
    categories: list[CashbackCategoryOut]


class CashbackMonthOut(BaseModel):
    model_config = ConfigDict(extra="forbid")

    month: str
    user_id: int
    banks: list[BankWithCategoriesOut]
