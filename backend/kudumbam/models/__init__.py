# Models module
from kudumbam.models.auth import (
    RegisterRequest, LoginRequest, AccountUpdateRequest, AdminLoginRequest,
    ForgotPasswordRequest, ResetPasswordRequest,
)
from kudumbam.models.onboarding import IntroRequest, ProfileCompletionRequest, ProfileUpdateRequest
from kudumbam.models.community import (
    InvitationCreate, HelpPostAction, HelpPostUpdate,
    AdminUserUpdate, FeatureSwitchUpdate, HelpPostModeration,
    GroupBody, GroupMemberAdd, GroupMemberUpdate,
    AnnouncementBody, AnnouncementAction, PasswordResetDecision,
    FormValueCreate, FormValueUpdate,
)
