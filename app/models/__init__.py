from app.models.admin_user import AdminUser
from app.models.admin_audit_log import AdminAuditLog
from app.models.discount import Discount, DiscountRedemption
