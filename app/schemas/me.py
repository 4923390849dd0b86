from pydantic import BaseModel


class MeOut(BaseModel):
    user_id: str
    email: str
    first_name: str
    last_name: str
    role: str
    credits: int
