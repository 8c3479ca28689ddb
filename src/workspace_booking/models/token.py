'''

'''
from uuid import UUID
from pydantic import BaseModel
from datetime import datetime

class TokenPayload(BaseModel):
    sub: UUID # 'sub' is the acting user's id, issued by the identity service
    exp: datetime
