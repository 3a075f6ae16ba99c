import logging
from typing import Optional
from sqlmodel import Session, select
from fastapi import HTTPException
from parking_app.controllers.parking_controller import get_lot_or_404
from parking_app.models.parking_models import RateTemplate, TariffEntry
from parking_app.schemas.parking_schemas import TariffBatchCreate, GenericResponse
from parking_app.utils.calculation import PERIOD_CODES, as_utc, resolve_tariff, utcnow
from parking_app.utils.errors import TariffNotFoundError

logger = logging.getLogger(__name__)


class TariffController:
    @staticmethod
    def read_tariffs(lot_id: int, db: Session):
        """Current price per period code for every rate template of the lot."""
        try:
            get_lot_or_404(lot_id, db)
            templates = db.exec(select(RateTemplate).where(RateTemplate.lot_id == lot_id)
                                .order_by(RateTemplate.id)).all()
            rows = db.exec(select(TariffEntry).where(TariffEntry.lot_id == lot_id)).all()

            now = utcnow()
            result = []
            for template in templates:
                prices = {}
                for period_code in PERIOD_CODES:
                    try:
                        row = resolve_tariff(rows, lot_id, period_code, template_id=template.id, now=now)
                    except TariffNotFoundError:
                        continue
                    prices[period_code] = {
                        "price": row.price,
                        "effective_from": row.effective_from,
                        "tariff_id": row.id,
                    }
                result.append({
                    "template_id": template.id,
                    "template_name": template.name,
                    "segment": template.segment,
                    "tariffs": prices,
                })
            return result

        except HTTPException as http_exc:
            raise http_exc
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"An error occured in read_tariffs: {e}")

    @staticmethod
    def create_tariffs(lot_id: int, batch: TariffBatchCreate, db: Session):
        try:
            get_lot_or_404(lot_id, db)
            if not batch.tariffs:
                raise HTTPException(status_code=400, detail="At least one tariff is required.")

            template_ids = {tariff.template_id for tariff in batch.tariffs}
            templates = {
                t.id: t for t in db.exec(select(RateTemplate).where(
                    RateTemplate.lot_id == lot_id, RateTemplate.id.in_(list(template_ids))
                )).all()
            }

            now = utcnow()
            new_rows = []
            for tariff in batch.tariffs:
                template = templates.get(tariff.template_id)
                if not template:
                    raise HTTPException(status_code=400, detail=f"Rate template {tariff.template_id} does not exist in this parking lot.")
                new_rows.append(TariffEntry(
                    lot_id=lot_id,
                    template_id=template.id,
                    segment=template.segment,
                    period_type=tariff.period_type,
                    price=tariff.price,
                    effective_from=as_utc(tariff.effective_from) if tariff.effective_from else now,
                ))

            db.add_all(new_rows)
            db.commit()
            logger.info(f"{len(new_rows)} tariffs saved for lot {lot_id}")
            return GenericResponse(message="Tariffs saved successfully", data={"saved": len(new_rows)})

        except HTTPException as http_exc:
            raise http_exc

        except Exception as e:
            db.rollback()
            raise HTTPException(status_code=500, detail=f"Internal server error while saving tariffs: {e}")

    @staticmethod
    def read_current_tariff(lot_id: int, period_type: int, db: Session,
                            template_id: Optional[int] = None, segment: Optional[str] = None):
        try:
            get_lot_or_404(lot_id, db)
            if template_id is None and not segment:
                raise HTTPException(status_code=400, detail="Either plantilla_id or segmento is required.")

            rows = db.exec(select(TariffEntry).where(
                TariffEntry.lot_id == lot_id, TariffEntry.period_type == period_type
            )).all()
            return resolve_tariff(rows, lot_id, period_type, template_id=template_id, segment=segment)

        except HTTPException as http_exc:
            raise http_exc

        except TariffNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))

        except Exception as e:
            raise HTTPException(status_code=500, detail=f"An error occured in read_current_tariff: {e}")
