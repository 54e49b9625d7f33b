import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)

ALLOWED_FILE_TYPES = (
    # Video types
    'video/mp4', 'video/mov', 'video/quicktime', 'video/avi',
    # Image types
    'image/jpeg', 'image/jpg', 'image/png', 'image/gif', 'image/webp', 'image/heic',
)
MAX_FILE_SIZE = 500 * 1024 * 1024  # 500MB, videos are compressed before upload
MAX_FILES_PER_UPLOAD = 20

MAX_GUEST_NAME_LENGTH = 100
MAX_GUEST_MESSAGE_LENGTH = 500
MAX_FILENAME_LENGTH = 255

NOTIFICATION_TITLE = "File Validation Errors"
TYPE_ERROR = "{name}: Only MP4, MOV, QuickTime, AVI videos and JPG, PNG, GIF, WEBP, HEIC images are supported."
SIZE_ERROR = "{name}: File too large. Maximum size is 500MB."
DUPLICATE_ERROR = "{name}: File already selected."
TOO_MANY_ERROR = "Too many files. Maximum {limit} files per upload."

QR_CODE_PATTERN = re.compile(r'^wedding_[a-zA-Z0-9_]+$')
SCRIPT_TAG_PATTERN = re.compile(r'<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>', re.IGNORECASE)
HTML_TAG_PATTERN = re.compile(r'<[^>]*>?')

Notifier = Callable[[str, str], None]


@dataclass(frozen=True)
class UploadCandidate:
    name: str
    mime_type: str
    size: int


@dataclass
class UploadValidationResult:
    accepted: List[UploadCandidate] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def notification(self) -> Optional[str]:
        """The combined message shown to the user, or None when nothing failed."""
        if not self.errors:
            return None
        return '\n'.join(self.errors)


def check_file(candidate: UploadCandidate, selected_names: Iterable[str] = ()) -> Optional[str]:
    """Return the first failing check's message for one file, or None."""
    if candidate.mime_type not in ALLOWED_FILE_TYPES:
        return TYPE_ERROR.format(name=candidate.name)
    if candidate.size > MAX_FILE_SIZE:
        return SIZE_ERROR.format(name=candidate.name)
    if candidate.name in selected_names:
        return DUPLICATE_ERROR.format(name=candidate.name)
    return None


def validate_files(candidates: Sequence[UploadCandidate],
                   already_selected: Sequence[UploadCandidate],
                   notify: Optional[Notifier] = None) -> UploadValidationResult:
    """Filter a batch of candidate files down to the ones that may be uploaded.

    Files are checked for type, then size, then name clashes with the files
    already selected. When the batch would push the selection past
    ``MAX_FILES_PER_UPLOAD`` the accepted list is truncated to fit. Every
    failure is reported through a single ``notify`` call.
    """
    selected_names = {f.name for f in already_selected}
    result = UploadValidationResult()

    for candidate in candidates:
        error = check_file(candidate, selected_names)
        if error:
            result.errors.append(error)
            continue
        result.accepted.append(candidate)

    if len(already_selected) + len(result.accepted) > MAX_FILES_PER_UPLOAD:
        result.errors.append(TOO_MANY_ERROR.format(limit=MAX_FILES_PER_UPLOAD))
        room = max(0, MAX_FILES_PER_UPLOAD - len(already_selected))
        result.accepted = result.accepted[:room]

    if result.errors:
        logger.info(f"Rejected {len(candidates) - len(result.accepted)} of {len(candidates)} files")
        if notify is not None:
            notify(NOTIFICATION_TITLE, result.notification)

    return result


def sanitize_filename(filename: str) -> str:
    """Replace anything outside [A-Za-z0-9.-] so the name is safe as an object key."""
    cleaned = re.sub(r'[^a-zA-Z0-9.-]', '_', filename)
    cleaned = re.sub(r'_{2,}', '_', cleaned)
    return cleaned[:MAX_FILENAME_LENGTH]


def sanitize_input(value: str) -> str:
    """Strip script blocks and HTML tags from free text."""
    value = SCRIPT_TAG_PATTERN.sub('', value)
    value = HTML_TAG_PATTERN.sub('', value)
    return value.strip()


def validate_guest_upload_data(guest_name: Optional[str] = None,
                               guest_message: Optional[str] = None) -> List[str]:
    errors = []
    if guest_name and len(guest_name) > MAX_GUEST_NAME_LENGTH:
        errors.append(f"Guest name must be less than {MAX_GUEST_NAME_LENGTH} characters")
    if guest_message and len(guest_message) > MAX_GUEST_MESSAGE_LENGTH:
        errors.append(f"Guest message must be less than {MAX_GUEST_MESSAGE_LENGTH} characters")
    return errors


def validate_project_qr_code(qr_code: str) -> bool:
    return bool(qr_code) and len(qr_code) <= 100 and QR_CODE_PATTERN.match(qr_code) is not None
