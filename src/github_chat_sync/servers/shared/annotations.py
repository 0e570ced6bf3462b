from typing import Annotated

from pydantic import Field

THREAD_ID_DESCRIPTION = "The id of the chat thread."
THREAD_ID = Annotated[int, Field(description=THREAD_ID_DESCRIPTION)]

CONTENT_DESCRIPTION = "The text of the message to send."
CONTENT = Annotated[str, Field(description=CONTENT_DESCRIPTION)]

MODEL_ID_DESCRIPTION = "The id of the model that should answer new messages, as returned by `list_models`."
MODEL_ID = Annotated[str, Field(description=MODEL_ID_DESCRIPTION)]
