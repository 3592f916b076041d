from flask import Blueprint, jsonify
from app.forms import RegisterDeviceForm, LinkDevicesForm, validated
from app.services import device_links

bp = Blueprint('devices', __name__, url_prefix='/api/devices')


@bp.route('/register', methods=['POST'])
def register():
    form = validated(RegisterDeviceForm)
    registration = device_links.register(
        form.user_id.data,
        form.device_type.data,
        form.push_token.data or None,
        form.family_id.data or None,
    )
    return jsonify({
        'success': True,
        'message': 'Device registered successfully',
        'device': registration.to_api(),
        'should_start_data_collection': registration.is_child(),
    })


@bp.route('/link', methods=['POST'])
def link():
    form = validated(LinkDevicesForm)
    edge = device_links.link(form.parent_id.data, form.child_id.data)
    return jsonify({
        'success': True,
        'message': 'Devices linked successfully',
        'link_id': edge.id,
        'parent_id': edge.parent_id,
        'child_id': edge.child_id,
    })


@bp.route('/unlink', methods=['POST'])
def unlink():
    form = validated(LinkDevicesForm)
    device_links.unlink(form.parent_id.data, form.child_id.data)
    return jsonify({'success': True, 'message': 'Devices unlinked'})


@bp.route('/<device_id>/reconcile', methods=['POST'])
def reconcile(device_id):
    peer_id = device_links.reconcile_link(device_id)
    return jsonify({'success': True, 'device_id': device_id, 'linked_to': peer_id})


@bp.route('/<device_id>')
def get_device(device_id):
    registration = device_links.get_registration(device_id)
    if registration is None:
        return jsonify({'success': True, 'device': None, 'message': 'Device not registered yet'})
    return jsonify({'success': True, 'device': registration.to_api()})
