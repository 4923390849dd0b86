from pydantic import BaseModel


class OutboxRunOut(BaseModel):
    # "enqueued" hands events to the worker, "processed" ran them in this process
    mode: str
    count: int
