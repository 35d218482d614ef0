# Package init for snapforge.models
from .gallery import Gallery as Gallery
from .gallery import GalleryCollaborator as GalleryCollaborator
from .gallery import GalleryInvitation as GalleryInvitation
from .image import Image as Image
from .image import ImageTag as ImageTag
from .image import ImageTagAssignment as ImageTagAssignment
from .logging import AppErrorLog as AppErrorLog
from .rate_limit import RateLimitCounter as RateLimitCounter
from .setting import Setting as Setting
from .user import Base as Base  # explicit re-export
from .user import User as User
from .user import UserSession as UserSession
