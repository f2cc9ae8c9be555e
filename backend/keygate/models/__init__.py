from keygate.models.user import User, UserRole, AppRole
from keygate.models.nonce import WalletAuthNonce, NoncePurpose
from keygate.models.wallet_mapping import WalletEmailMapping
from keygate.models.login_token import LoginToken
