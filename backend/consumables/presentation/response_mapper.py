from typing import Any, Dict

from consumables.application.auth import LoginResult
from consumables.application.dashboard import DashboardData
from consumables.application.master_data import ImportResult
from consumables.application.use_cases import CreatePartRequestResult
from consumables.domain.models import (
    DeliveryPlace,
    PartRequest,
    RegionCode,
    TeamCode,
    UserAccount,
    UserSummary,
)


def _flag(value: bool) -> str:
    return "Y" if value else "N"


def part_request_to_response(request: PartRequest) -> Dict[str, Any]:
    return {
        "requestNo": request.request_no,
        "requestDate": request.request_date,
        "requesterEmail": request.requester_id,
        "requesterName": request.requester_name,
        "employeeCode": request.employee_code,
        "team": request.team,
        "region": request.region,
        "itemName": request.item_name,
        "modelName": request.model_name,
        "serialNo": request.serial_no,
        "quantity": request.quantity,
        "assetNo": request.asset_no,
        "deliveryPlace": request.delivery_place,
        "phone": request.phone,
        "company": request.company,
        "remarks": request.remarks,
        "photoUrl": request.photo_url,
        "status": request.status.value,
        "handler": request.handler,
        "handlerRemarks": request.handler_remarks,
        "orderDate": request.order_date,
        "expectedDeliveryDate": request.expected_delivery_date,
        "receiptDate": request.receipt_date,
        "lastModified": request.last_modified,
        "lastModifiedBy": request.last_modified_by,
    }


def my_request_to_response(request: PartRequest) -> Dict[str, Any]:
    response = part_request_to_response(request)
    response["canCancel"] = request.can_cancel
    response["canConfirmReceipt"] = request.can_confirm_receipt
    return response


def create_result_to_response(result: CreatePartRequestResult) -> Dict[str, Any]:
    response: Dict[str, Any] = {"success": result.success, "message": result.message}
    if result.request_no:
        response["requestNo"] = result.request_no
    if result.is_duplicate:
        response["isDuplicate"] = True
        response["duplicateRequestNo"] = result.duplicate_request_no
    return response


def user_summary_to_response(user: UserSummary) -> Dict[str, Any]:
    return {
        "userId": user.id,
        "name": user.name,
        "role": user.role.value,
        "team": user.team,
        "employeeCode": user.employee_code,
        "region": user.region,
    }


def user_to_response(user: UserAccount) -> Dict[str, Any]:
    # The password hash never leaves the service.
    return {
        "userId": user.user_id,
        "name": user.name,
        "employeeCode": user.employee_code,
        "team": user.team,
        "region": user.region,
        "role": user.role.value,
        "active": _flag(user.active),
    }


def delivery_place_to_response(place: DeliveryPlace) -> Dict[str, Any]:
    return {
        "name": place.name,
        "team": place.team,
        "address": place.address,
        "contact": place.contact,
        "manager": place.manager,
        "active": _flag(place.active),
        "remarks": place.remarks,
    }


def region_to_response(region: RegionCode) -> Dict[str, Any]:
    return {"code": region.code, "name": region.name}


def team_to_response(team: TeamCode) -> Dict[str, Any]:
    return {"code": team.code, "name": team.name, "region": team.region}


def login_result_to_response(result: LoginResult) -> Dict[str, Any]:
    if not result.success:
        return {"success": False, "message": result.message}
    return {
        "success": True,
        "token": result.token,
        "user": user_summary_to_response(result.user),
        "redirectUrl": result.redirect_url,
    }


def import_result_to_response(result: ImportResult) -> Dict[str, Any]:
    return {
        "success": result.success,
        "message": result.message,
        "imported": {
            "users": result.imported.users,
            "deliveryPlaces": result.imported.delivery_places,
            "skippedUsers": result.imported.skipped_users,
            "skippedPlaces": result.imported.skipped_places,
        },
    }


def dashboard_to_response(data: DashboardData) -> Dict[str, Any]:
    stats = data.stats
    return {
        "startDate": data.start_date,
        "endDate": data.end_date,
        "stats": {
            "total": stats.total,
            "requested": stats.requested,
            "ordering": stats.ordering,
            "completed": stats.completed,
            "finished": stats.finished,
            "cancelled": stats.cancelled,
            "period": {
                "new": stats.period.new,
                "requested": stats.period.requested,
                "inProgress": stats.period.in_progress,
                "delayed": stats.period.delayed,
                "completed": stats.period.completed,
                "total": stats.period.total,
            },
        },
        "recent": [part_request_to_response(r) for r in data.recent],
        "urgent": [part_request_to_response(r) for r in data.urgent],
        "delayed": [
            {**part_request_to_response(d.request), "delayDays": d.delay_days}
            for d in data.delayed
        ],
        "notifications": [part_request_to_response(r) for r in data.notifications],
        "requests": [part_request_to_response(r) for r in data.requests],
    }
