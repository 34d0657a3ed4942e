from pydantic import BaseModel, Field


class AdminLoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=150)
    password: str = Field(min_length=1)


class TokenResponse(BaseModel):
    token: str


class TokenPayload(BaseModel):
    sub: str
    type: str
    iat: int
    exp: int
