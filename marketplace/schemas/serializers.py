# marketplace/schemas/serializers.py
# Преобразование ORM объектов в JSON ответы.


def _iso(value):
    return value.isoformat() if value else None


def order_item_to_dict(item) -> dict:
    return {
        "productId": item.product_id,
        "productName": item.product.name if item.product else None,
        "quantity": item.quantity,
        "price": item.price,
    }


def order_to_dict(order, include_items: bool = True) -> dict:
    data = {
        "id": order.id,
        "orderNumber": order.order_number,
        "customerId": order.customer_id,
        "storeId": order.store_id,
        "status": order.status.value,
        "paymentStatus": order.payment_status.value,
        "subtotal": order.subtotal,
        "shippingFee": order.shipping_fee,
        "total": order.total,
        "province": order.province,
        "deliveryAddress": order.delivery_address,
        "deliveryLat": order.delivery_lat,
        "deliveryLng": order.delivery_lng,
        "customerPhone": order.customer_phone,
        "driverId": order.driver_id,
        "driverLat": order.driver_lat,
        "driverLng": order.driver_lng,
        "estimatedTime": order.estimated_time,
        "createdAt": _iso(order.created_at),
        "confirmedAt": _iso(order.confirmed_at),
        "completedAt": _iso(order.completed_at),
    }
    if include_items:
        data["items"] = [order_item_to_dict(item) for item in order.items]
    return data


def delivery_proof_to_dict(proof) -> dict | None:
    if proof is None:
        return None
    return {
        "photoUrl": proof.photo_url,
        "notes": proof.notes,
        "createdAt": _iso(proof.created_at),
    }


def payout_to_dict(payout) -> dict:
    return {
        "id": payout.id,
        "vendorId": payout.vendor_id,
        "vendorName": (payout.vendor.full_name or "Vendor") if payout.vendor else None,
        "periodStart": _iso(payout.period_start),
        "periodEnd": _iso(payout.period_end),
        "totalSales": payout.total_sales,
        "platformFee": payout.platform_fee,
        "netAmount": payout.net_amount,
        "orderCount": payout.order_count,
        "status": payout.status.value,
        "paymentMethod": payout.payment_method,
        "paymentReference": payout.payment_reference,
        "paidAt": _iso(payout.paid_at),
        "createdAt": _iso(payout.created_at),
    }


def driver_profile_to_dict(profile) -> dict:
    # номер счёта наружу отдаётся только последними цифрами
    account = profile.account_number or ""
    return {
        "id": profile.id,
        "userId": profile.user_id,
        "phone": profile.user.phone if profile.user else None,
        "name": profile.name,
        "idNumber": profile.id_number,
        "licenseNumber": profile.license_number,
        "vehicleType": profile.vehicle_type,
        "vehicleReg": profile.vehicle_reg,
        "bankName": profile.bank_name,
        "accountNumber": f"****{account[-4:]}",
        "branchCode": profile.branch_code,
        "isApproved": profile.is_approved,
        "isActive": profile.is_active,
        "approvedAt": _iso(profile.approved_at),
        "createdAt": _iso(profile.created_at),
    }
