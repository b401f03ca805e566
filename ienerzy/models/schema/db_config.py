from ienerzy.models.schema.blacklist import BlacklistEntry
from ienerzy.models.schema.consumer import ConsumerEntry
from ienerzy.models.schema.otp import OtpEntry
from ienerzy.models.schema.rate_limit import RateLimitEntry
from ienerzy.models.schema.session import SessionEntry
from ienerzy.models.schema.user import UserEntry


class Databases:
    blacklist = BlacklistEntry
    consumer = ConsumerEntry
    otp = OtpEntry
    rate_limit = RateLimitEntry
    session = SessionEntry
    user = UserEntry
