from .response_schemas import BaseResponse, ErrorDetails, ListMeta

__all__ = ["BaseResponse", "ErrorDetails", "ListMeta"]
