from .client import Client
from .client_admin import ClientAdmin
from .subscription import Subscription
from .community import Community, RoundCommunitySnapshot
from .board_member import BoardMember
from .survey_round import SurveyRound
from .session import SurveySession, Message
from .invitation_log import InvitationLog
from .critical_alert import CriticalAlert
from .setting import Setting
from .email_log import EmailLog
