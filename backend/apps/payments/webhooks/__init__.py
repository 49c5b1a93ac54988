from .mpesa import MpesaCallbackView  # noqa: F401
from .pesapal import PesaPalIPNView  # noqa: F401
