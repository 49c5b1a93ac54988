from .mpesa import MpesaClient, MpesaError, normalize_phone  # noqa: F401
from .pesapal import PesaPalClient, PesaPalError, generate_merchant_reference  # noqa: F401
